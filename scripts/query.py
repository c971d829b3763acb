#!/usr/bin/env python3
"""
Query Script: ask questions against the embedded documents
"""

import click
from dotenv import load_dotenv
from urban_rag.llm.llm_client import create_llm_client
from urban_rag.pipeline.factory import build_pipeline
from urban_rag.rag.qa import QuestionAnswerer
from urban_rag.utils.config import CONFIG
from urban_rag.utils.logger import setup_logger_from_config, logger


load_dotenv('.env')

@click.command()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--top-k', default=None, type=int, help='Number of chunks to retrieve')
@click.argument('question', required=False)

def main(debug, top_k, question):
  """Ask questions to the document knowledge base"""
  setup_logger_from_config(CONFIG, debug=debug)
  logger.info("Starting query system")

  retrieval = CONFIG.get('retrieval', {})
  pipeline = build_pipeline(CONFIG)
  qa = QuestionAnswerer(
    pipeline.embedder,
    pipeline.index,
    create_llm_client(CONFIG),
    top_k = top_k or retrieval.get('top_k', 5),
    score_threshold = retrieval.get('score_threshold', 0.7)
  )

  def answer(q: str) -> None:
    result = qa.ask(q)
    if not result.success:
      print(f"\n✗ {result.message}\n")
      return
    print(f"\nAnswer: {result.value['answer']}\n")
    for source in result.value['sources']:
      print(f"  - {source['title']} ({source['url']}) [{source['score']}]")

  if question:
    answer(question)
    return

  print("\nType 'exit' to quit\n")
  while True:
    print("-"*80)
    user_query = input("You: ").strip()
    if user_query.lower() in ['exit', 'quit', 'q']:
      print("Bye!")
      break
    if user_query:
      answer(user_query)


if __name__ == "__main__":
  main()
