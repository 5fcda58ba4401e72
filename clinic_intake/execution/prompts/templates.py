"""
Template name constants.

Pure constants - no I/O or file system knowledge.
"""


class Template:
    """Template name constants. Use these instead of raw strings."""

    IMAGE_ANALYSIS_SYSTEM = "image_analysis_system"
    ANALYSIS_SUMMARY = "analysis_summary"
