"""
Feedback Graph QA

Answers natural-language questions over a product-feedback knowledge graph
(reports, issues, solutions, users, sources, products) by translating them into
Cypher, executing the query against Neo4j and narrating the result.
"""

__version__ = "1.0.0"
__author__ = "Feedback Graph Team"
