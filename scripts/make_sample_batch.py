#!/usr/bin/env python
from __future__ import annotations

import argparse
import csv
from pathlib import Path


HEADER = ["S. No.", "Product Name", "Input Image Urls"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample batch CSV for /api/upload")
    parser.add_argument("--output", required=True, help="Output file path (.csv)")
    parser.add_argument("--base-url", default="https://picsum.photos/id", help="Image host prefix")
    parser.add_argument("--items", type=int, default=3, help="Number of products")
    parser.add_argument("--images", type=int, default=2, help="Images per product")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    with output.open("w", newline="", encoding="utf-8") as fp:
        writer = csv.writer(fp)
        writer.writerow(HEADER)
        for index in range(1, args.items + 1):
            urls = [
                f"{args.base_url.rstrip('/')}/{index * 10 + image}/600/400.jpg"
                for image in range(args.images)
            ]
            writer.writerow([index, f"SKU{index:03d}", ",".join(urls)])

    print(f"Sample batch CSV written to {output}")


if __name__ == "__main__":
    main()
