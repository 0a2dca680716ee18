"""
Pipeline module: orchestrates extraction for single answers and batches.

Public API:
    - PositionExtractor: extract/process one AnswerRecord
    - run_batch, BatchOptions, BatchSummary: bounded-concurrency batch runner
"""
