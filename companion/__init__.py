"""Live tabletop session companion backend"""
