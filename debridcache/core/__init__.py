"""Search, verification and resolution core"""
