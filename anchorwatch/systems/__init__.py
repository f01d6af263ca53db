"""AnchorWatch — Systems"""
