# =============================================================================
# File: inviter/hangout/ports/__init__.py
# Description: Ports directory for the Hangout domain
# =============================================================================
# EMPTY - use direct imports:
#   from inviter.hangout.ports.item_store_port import ItemStorePort
#   from inviter.hangout.ports.authorization_port import AuthorizationPort
#   from inviter.hangout.ports.change_signal_port import ChangeSignalPort
