# Payments module
