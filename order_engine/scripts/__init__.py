"""
运维脚本
"""
