# Customers module
