"""
funcengine - runs component functions (attributes, qualifications, code
generation, resource sync) at a workspace/system/change set coordinate.
"""

__version__ = "0.1.0"
