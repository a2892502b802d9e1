"""
Followgraph Test Suite

Unit tests for the acquisition pipeline and graph construction.

Test organization:
- unit/ - Unit tests for individual components
- fixtures/ - Test data, mock responses, clock and sleep doubles
"""
