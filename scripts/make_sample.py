from ragbench.io_utils import create_sample_subset


def main() -> None:
    """Build the quick-test subset under data/sample from the full dataset."""
    sample_dir = create_sample_subset(data_dir="data", sample_size=100)
    print(f"Wrote queries, qrels, answers and doc_ids to {sample_dir}")


if __name__ == "__main__":
    main()
