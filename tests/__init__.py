"""
Payment Service Test Suite

This package contains all tests for the payment service including:
- Unit tests for amount conversion and the PayPal token cache
- PayPal provider state machine tests against a fake transport
- Session handler and HTTP API tests
"""
