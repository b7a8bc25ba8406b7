"""
                Weekend Pre-Order Service

Backend for weekend bagel and breakfast sandwich pre-orders: customers book
a pickup slot, each slot admits a fixed number of orders per week, and the
kitchen manages the queue behind a password.

Version: 1.0.0
"""

__version__ = "1.0.0"
