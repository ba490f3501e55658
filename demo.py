import pandas as pd

from pipeflow import flow


def main():
    # 1. Create Dummy Data
    data = {
        'id': range(1, 101),
        'category': ['A', 'B', 'A', 'C', 'B'] * 20,
        'value': range(101, 201)
    }
    df = pd.DataFrame(data)
    input_file = 'input.csv'
    output_file = 'output.csv'
    pq_file = 'output.parquet'

    df.to_csv(input_file, index=False)
    print(f"Created {input_file} with 100 rows.")

    # 2. Define Pipeline
    # Goal: Filter where value > 150, Rename 'value' to 'score', Group by 'category' and sum 'score'
    pipeline = (
        flow.from_csv(input_file, chunksize=20)  # Small chunksize to test streaming
        .parallel(4)
        .filter(lambda r: r.get_typed('value', int) > 150)
        .rename_column('value', 'score')
        .group_by('category', {'score': ('score', 'sum'), 'rows': 'count'})
        .order_by(lambda r: r['category'])
    )

    # 3. Run Pipeline (CSV)
    print("Running pipeline (CSV)...")
    written = pipeline.to_csv(output_file)

    # 4. Verify Output
    print(f"Pipeline finished. Wrote {written} rows to {output_file}")
    result = pd.read_csv(output_file)
    print("Result head:")
    print(result.head(10))

    # 5. Same pipeline again, into Parquet; the source is re-read from scratch
    print("\nRunning pipeline (Parquet)...")
    pipeline.to_parquet(pq_file)
    print(f"Parquet run finished. Output at {pq_file}.")


if __name__ == "__main__":
    main()
