"""
Content store for the personal site backend.

This package keeps the site's JSON documents (blog, portfolio, visitor log,
admin config) in an append-only blob store and gates writes behind
short-lived admin sessions held in a key-value store with native expiry.
"""
