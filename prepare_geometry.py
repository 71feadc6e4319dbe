"""
Download boundary GeoJSON files into the data directory for faster loading.
Run this once before starting the app:

    python prepare_geometry.py
    python prepare_geometry.py --regions-url <url-of-region-geojson>
"""
import argparse
import json
from pathlib import Path

import config
from errors import GeometryLoadError
from map_layers import Layer, NAME_PROPERTIES, feature_name, load_geometry


def download(url: str, target: Path, layer: Layer) -> bool:
    """Fetch a FeatureCollection and save it; returns False if it could not be fetched."""
    print(f"Downloading {layer.value} boundaries from {url}...")
    try:
        document = load_geometry(url)
    except GeometryLoadError as e:
        print(f"Failed: {e}")
        return False

    features = document.get("features", [])
    unnamed = [f for f in features if not feature_name(f, layer)]
    if unnamed:
        print(f"Warning: {len(unnamed)} features have none of the name properties {NAME_PROPERTIES[layer]}")

    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fh:
        json.dump(document, fh, ensure_ascii=False)
    print(f"Saved {len(features)} features to {target}")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Download municipality and region boundaries.")
    parser.add_argument("--municipalities-url", default=config.MUNICIPALITY_GEOJSON_URL)
    parser.add_argument("--regions-url", default=None, help="Region GeoJSON URL (skipped if not given)")
    args = parser.parse_args()

    ok = download(args.municipalities_url, Path(config.MUNICIPALITY_GEOJSON), Layer.ENTITIES)
    if args.regions_url:
        ok = download(args.regions_url, Path(config.REGION_GEOJSON), Layer.REGIONS) and ok
    else:
        print(f"No --regions-url given; place the region boundaries at {config.REGION_GEOJSON}")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
