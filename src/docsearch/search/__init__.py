"""
Search indexing and query engine package.

- analyzers: Tokenizer and filters (case folding, stopwords)
- sqlite_storage: SQLite-backed postings and document storage
- stats: BM25 scoring statistics
- bm25_engine: Query scoring engine
- indexer: Batch document indexing
- snippet: Highlighted excerpts
- search_index: Lifecycle facade tying the pieces together
"""
