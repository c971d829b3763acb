#!/usr/bin/env python3
"""
Database Setup Script

Initialize MongoDB collections and indexes and verify the connection
"""

import click
from dotenv import load_dotenv
from urban_rag.database.mongodb_client import MongoDocumentStore, create_mongo_client
from urban_rag.utils.config import CONFIG, load_config
from urban_rag.vectorstore.vector_index import MongoVectorIndex


@click.command()
@click.option('--config', 'config_path', default=None, help='Config file path')
@click.option('--clear-db', is_flag=True, help='Delete all documents and vectors (DANGEROUS!)')
def main(config_path, clear_db):
  """Setup and verify database"""
  load_dotenv('.env')
  config = load_config(config_path) if config_path else CONFIG

  print("="*80)
  print("DATABASE SETUP")
  print("="*80)

  try:
    print("\nConnecting to MongoDB...")
    client = create_mongo_client(config)
    store = MongoDocumentStore.from_config(client, config)
    index = MongoVectorIndex.from_config(client, config)

    if clear_db:
      response = input("⚠ WARNING: This will delete all documents and vectors! Type 'YES' to confirm: ")
      if response == "YES":
        store.clear_collection()
        index.collection.delete_many({})
      else:
        print("Aborted.")
        return

    stats = store.aggregate_stats()

    print("\n✓ Database connection successful!")
    print("\nCurrent Statistics:")
    print(f"  Total documents: {stats['total']}")
    print(f"  Processed: {stats['processed']} ({stats['completionRate']}%)")
    print(f"  Embedded: {stats['embedded']} ({stats['embeddingRate']}%)")
    print(f"  Vectors: {index.count()}")
    print(f"  Pending: {stats['pendingProcess']} to process, {stats['pendingEmbed']} to embed")
    for row in stats['perSource']:
      print(f"    {row['source']}: {row['embedded']}/{row['total']} embedded")

    print("\n✓ Database is ready for use!")

  except Exception as e:
    print(f"\n✗ Error: {e}")
    print("\nTroubleshooting:")
    print("  1. Ensure MongoDB is running (mongod)")
    print("  2. Check MONGODB_URI in .env or the connection string in config/config.yaml")
    print("  3. Verify network connectivity")
    raise SystemExit(1)


if __name__ == "__main__":
  main()
