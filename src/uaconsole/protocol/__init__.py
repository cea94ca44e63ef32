"""
The console wire protocol: NUL-delimited UTF-8 JSON responses, and text commands.
"""
