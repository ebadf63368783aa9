"""
Rekognition Tagger

A service that enriches uploaded media attachments with AWS Rekognition
labels, faces, celebrities and text, stores the results as attachment
metadata and label terms, and widens media-library search with the
detected keywords.
"""

__version__ = "1.0.0"
__author__ = "Rekognition Tagger Team"
