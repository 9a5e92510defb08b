"""
Test suite for the Appointment Scheduling Service.

Contains unit tests for the scheduling rules and integration tests for the API.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
