"""
FlowCanvas Server - hosts a canvas session behind a FastAPI app.
"""
