"""RTPS parsing, ROS graph building, filtering and layout, and /proc resource sampling."""

__version__ = "0.1.0"