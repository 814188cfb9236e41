"""
Source handling: repository references, git access and snapshot resolution.
"""
