"""
HTTP接口层
"""
