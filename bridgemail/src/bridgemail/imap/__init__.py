"""IMAP session adapter and the mailbox operations built on it."""
