"""
Общие утилиты: логирование, константы, время.
"""
