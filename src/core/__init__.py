"""核心组件"""
