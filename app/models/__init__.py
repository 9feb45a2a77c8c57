from sqlalchemy import Column, Integer, String, Text, Index
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector
from app.constants import (
    EMBEDDING_DIMENSION,
    HNSW_EF_CONSTRUCTION,
    HNSW_M,
    VECTOR_COLLECTION_NAME,
)

Base = declarative_base()


class RecipeEmbedding(Base):
    """
    Vector collection record: one embedding per recipe plus the normalized
    ingredient names used by scalar-array filter expressions.
    The recipe tables themselves are owned by the main application schema.
    """

    __tablename__ = VECTOR_COLLECTION_NAME

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_id = Column(String(36), nullable=False, index=True)  # recipe UUID as text
    embedding = Column(Vector(EMBEDDING_DIMENSION), nullable=False)
    ingredients = Column(ARRAY(Text), nullable=False, default=list)

    __table_args__ = (
        Index(
            "idx_recipe_embeddings_hnsw",
            embedding,
            postgresql_using="hnsw",
            postgresql_with={"m": HNSW_M, "ef_construction": HNSW_EF_CONSTRUCTION},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
        Index("idx_recipe_embeddings_ingredients", ingredients, postgresql_using="gin"),
    )
