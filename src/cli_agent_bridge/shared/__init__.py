"""共享模块：REPL 输出解析与响应格式化。"""
