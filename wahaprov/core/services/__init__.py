"""
Services — one module per host concern.

Services that READ host state (ports, dpkg-query, ufw status) never
write. Services that WRITE go through the command runner, which holds
back mutations in dry-run mode.
"""
