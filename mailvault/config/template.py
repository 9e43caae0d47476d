"""Default configuration template.

This template is written to ~/.config/mailvault/config.toml
when running `mailvault config init`.
"""

CONFIG_TEMPLATE = """\
# mailvault configuration

[defaults]
max_connections = 5
max_retries = 5

# Add the mailboxes you want to back up below.
# Example Office 365 account:
#
# [accounts.work]
# provider = "office365"
# client_id = "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"
# data_dir = "~/Backup/Work"
# filter = "parentFolderId eq 'Inbox'"
# sync_deletes = true
#
# Example Gmail account:
#
# [accounts.personal]
# provider = "gmail"
# client_id = "xxxxxx.apps.googleusercontent.com"
# data_dir = "~/Backup/Personal"
# filter = "in:sent"
# start_date = "2023/09/01"
# end_date = "2023/09/15"
#
# For client_secret, use the MAILVAULT_CLIENT_SECRET environment variable.
#
# Then run:
#   mailvault backup --account work
"""
