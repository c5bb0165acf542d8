"""Multi-stage recommendation pipeline stages"""
