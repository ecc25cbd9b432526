"""Chain and protocol adapters"""
