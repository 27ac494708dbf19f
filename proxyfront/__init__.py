"""proxyfront: an upgradeable proxy front.

An address-stable front keeps its administrator and active logic address in
fixed storage slots and forwards every other call to the swappable logic,
which runs against the front's own storage.
"""

__version__ = "0.1.0"
