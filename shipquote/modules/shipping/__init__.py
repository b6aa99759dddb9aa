# Shipping providers and rules
