"""
레이아웃 재구성: TextItem → LineItem → LineItemBlock → Markdown
"""
