"""Process supervision and recovery engine for USB audio streaming."""
