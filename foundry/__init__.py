"""Knowledge Foundry - hierarchical knowledge base with inferred cross-references."""
