"""
brain — ingestion-to-retrieval pipeline for code and documentation sources.

Components:
  chunker       — document text → ordered, overlapping chunks
  embedder      — serialised text → L2-normalised vector provider
  chroma_store  — persistent ChromaDB table of chunk records
  ingestion     — chunk + embed + insert, with per-file failure reports
  retriever     — similarity search and retrieval-augmented generation
  llm_client    — OpenAI-compatible chat/completion adapter
  service       — BrainService facade used by transports
"""
