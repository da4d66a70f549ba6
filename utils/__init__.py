"""Utility modules for autoscale."""
from utils.logger import setup_logging
from utils.formatters import format_timestamp, format_duration, time_ago
from utils.http_client import HTTPClient, APIError
from utils.templating import substitute, unresolved
