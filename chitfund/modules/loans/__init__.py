# Loans module
