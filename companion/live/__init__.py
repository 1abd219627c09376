"""
Live session pipeline

Everything that runs while a table is recording: transcription, correction,
attribution, merging, audio triggers and health extraction.
"""
