#!/usr/bin/env python3
"""Print effective pipeline limits (retry, chunking, batching, media, retrieval, gateway rate limit). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from contentflow.core.config import settings
from contentflow.main import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS


def main():
    retry = settings.retry_policy()
    chunking = settings.chunking()
    batches = settings.embedding_batches()
    media = settings.media()
    retrieval = settings.retrieval()

    print("Pipeline limits")
    print("---------------")
    print(f"  Retry                 = {retry.max_attempts} attempts, {retry.base_delay}s x{retry.backoff_multiplier} (cap {retry.max_delay}s), quota errors only")
    print(f"  Chunking              = {chunking.chunk_size} chars, {chunking.chunk_overlap} overlap")
    print(f"  Embedding batches     = {batches.embedding_batch_size} chunks, {batches.inter_batch_delay}s apart")
    print(f"  Upsert batches        = {batches.upsert_batch_size} vectors")
    print(f"  Media                 = {media.max_mb} MB max, {media.download_timeout}s download timeout")
    print(f"  Retrieval             = top {retrieval.top_k}, thresholds {retrieval.primary_threshold} -> {retrieval.fallback_threshold}, {retrieval.max_context_matches} matches in context")
    print(f"  Rate limit            = {RATE_LIMIT_REQUESTS} submissions / {RATE_LIMIT_WINDOW_SECONDS} s (per client IP)")
    print("")
    print("Env: RETRY_*, CHUNK_*, EMBEDDING_BATCH_SIZE, INTER_BATCH_DELAY, UPSERT_BATCH_SIZE, MEDIA_*, RETRIEVE_TOP_K, *_THRESHOLD (see .env.example)")


if __name__ == "__main__":
    main()
