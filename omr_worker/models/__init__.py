"""Wire models for the OMR worker API."""
