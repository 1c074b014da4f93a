# Loan documents module
