# Investors module
