"""Automated AI grading pipeline for LMS submissions."""
