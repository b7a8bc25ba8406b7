"""
                        Services Module

Contains the business logic of the pre-order service.

Services:
    - week: Monday-anchored week keys
    - phone: phone number normalization
    - pricing: order totals in cents
    - capacity: slot capacity gate
    - orders: order lifecycle (create, edit, status, delete, reset, reports)
    - notifications: SMS with Mock (development) and Twilio (production)
"""
