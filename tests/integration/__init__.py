"""
Integration tests for fconfig.

These tests run the probe runner and platform detection against the host C
compiler and build a generated plan with make.
"""
