# Outsource module
