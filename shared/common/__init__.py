# Shared Common Library for the Shared-Vehicle Platform
# This package contains shared utilities, authentication, error handling,
# and other common components used across the microservices.

__version__ = "1.0.0"
