"""Controlled documents: versioned content, tags and file attachments."""
