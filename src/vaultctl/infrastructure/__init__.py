"""Infrastructure layer — vault root, document discovery, atomic file I/O.

This layer depends on stdlib and the domain's schema loader only.
The service layer bridges between domain logic and infrastructure.
"""
