# Activities module
