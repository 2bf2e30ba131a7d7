# Collections module
