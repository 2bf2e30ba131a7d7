# Chit groups module
