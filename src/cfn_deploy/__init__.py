"""
Two-tier CloudFormation deployment tool.

A long-lived configuration stack (bucket + execution role) and a per-project
application stack, deployed from a local directory or a pinned git snapshot.
"""
