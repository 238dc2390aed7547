"""Policy lifecycle: drafting, review workflow, publication, attachments."""
