"""BillBuddy: medical bill auditing."""
