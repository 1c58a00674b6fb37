"""Cell conversion helpers and lookahead cursors."""
