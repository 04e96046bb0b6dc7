"""Right-to-erasure workflow: accepts account deletion requests and drives them
through backup, cleanup, identity deletion, verification and confirmation."""
