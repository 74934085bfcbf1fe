"""pvemirror — switch a Proxmox VE host onto a regional package mirror."""

__version__ = "0.1.0"
