"""SousChef - a culinary assistant with long-term dietary memory."""

__version__ = "0.1.0"
