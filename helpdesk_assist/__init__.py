"""
Helpdesk Assist.

This package turns free-form customer text into helpdesk tickets and drafts
AI-assisted replies by combining document text extraction, a generative-text
provider and the ticketing system's REST API.
"""

__version__ = "1.0.0"
__author__ = "Support Engineering"
