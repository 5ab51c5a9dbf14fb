"""
Command-line interface for GeoMin tools.

Usage:
    geomin anomalies image.json --algorithm rx --top 20 --output rx.json
    geomin clouds image.npy --algorithm sentinel2
    geomin index image.json ndvi clay
    geomin minerals crosta image.json --target iron
    geomin minerals sam image.json --reference kaolinite
    geomin minerals unmix image.json --endmembers kaolinite hematite vegetation
    geomin explore image.json --targets hydroxyl iron
    geomin config --show
"""

import sys
import logging
import argparse
from pathlib import Path

import yaml

from geomin_tools.exceptions import GeoMinError

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool, level: str = 'INFO'):
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


def _add_input_args(parser):
    parser.add_argument('path', help='Raster file (.json, .npy or .csv)')
    parser.add_argument('--bands', '-b', default=None,
                        help='Band convention: standard, sentinel2 or landsat (default: by band count)')
    parser.add_argument('--n-bands', type=int, default=None,
                        help='Band count (required for .csv)')
    parser.add_argument('--output', '-o', default=None,
                        help='Write the result document to this JSON file')


def _print_locations(locations, limit: int = 10):
    if not locations:
        return
    print()
    print(f"Top {min(limit, len(locations))} of {len(locations)} locations:")
    print(f"  {'Rank':>4}  {'X':>5}  {'Y':>5}  {'Score':>8}")
    for rank, loc in enumerate(locations[:limit], start=1):
        print(f"  {rank:>4}  {loc.col:>5}  {loc.row:>5}  {loc.score:>8.4f}")


# =============================================================================
# Commands
# =============================================================================

def anomalies_command(args, config):
    from geomin_tools.engines import detect_anomalies
    from geomin_tools.io import load_raster

    raster = load_raster(args.path, args.bands, args.n_bands)
    top_n = args.top or config.get('processing', 'top_n')

    if args.algorithm == 'rx':
        overrides = {'top_n': top_n}
        if args.window:
            overrides['window_size'] = args.window
        if args.threshold is not None:
            overrides['threshold'] = args.threshold
        options = config.rx_options(**overrides)
    elif args.algorithm == 'lof':
        overrides = {'top_n': top_n}
        if args.contamination is not None:
            overrides['contamination'] = args.contamination
        options = config.lof_options(**overrides)
    else:
        options = config.classifier_options(top_n=top_n)

    if args.algorithm == 'isolation_forest':
        from geomin_tools.anomaly.classifier import IsolationForestDetector, SklearnIsolationForest
        params = config.isolation_forest_params()
        if args.contamination is not None:
            params['contamination'] = args.contamination
        result = IsolationForestDetector(SklearnIsolationForest(**params)).operate(raster, options)
    else:
        result = detect_anomalies(raster, args.algorithm, options)

    stats = result.statistics
    print("Detection complete:")
    print(f"  Method: {stats['method']}")
    print(f"  Total pixels: {stats['total_pixels']}")
    print(f"  Anomaly pixels: {stats['anomaly_pixels']}")
    print(f"  Anomaly percentage: {stats['anomaly_percentage']:.2f}%")
    _print_locations(result.top_locations)
    return result.to_document()


def clouds_command(args, config):
    from geomin_tools.cloud.masker import CloudMasker
    from geomin_tools.io import load_raster

    raster = load_raster(args.path, args.bands, args.n_bands)
    overrides = {}
    if args.algorithm:
        overrides['algorithm'] = args.algorithm
    result = CloudMasker(config.cloud_options(**overrides)).operate(raster)

    stats = result.statistics
    print(f"Cloud mask ({stats['algorithm']}):")
    print(f"  Cloud pixels: {stats['cloud_pixels']} ({stats['cloud_percentage']:.2f}%)")
    print(f"  Clear pixels: {stats['clear_pixels']} ({stats['clear_percentage']:.2f}%)")
    return result.to_document()


def index_command(args, config):
    from geomin_tools.indices.calculator import available_indices, calculate_multiple
    from geomin_tools.io import load_raster

    if args.list:
        for key, info in available_indices().items():
            print(f"  {key:<14} {info['formula']:<48} {info['description']}")
        return None
    if not args.indices:
        raise GeoMinError("Name at least one index (or use --list)")

    raster = load_raster(args.path, args.bands, args.n_bands)
    results = calculate_multiple(raster, args.indices)
    for key, result in results.items():
        s = result.statistics
        print(f"{key}: min={s['min']:.4f} max={s['max']:.4f} mean={s['mean']:.4f} "
              f"std={s['std']:.4f} valid={s['valid_pixels']}/{s['total_pixels']}")
    return {key: result.to_document() for key, result in results.items()}


def minerals_command(args, config):
    from geomin_tools.io import load_raster
    from geomin_tools.mineralogy.crosta import crosta_pca
    from geomin_tools.mineralogy.sam import spectral_angle_mapper
    from geomin_tools.mineralogy.unmixing import unmix

    raster = load_raster(args.path, args.bands, args.n_bands)

    if args.method == 'crosta':
        overrides = {}
        if args.target:
            overrides['target'] = args.target
        if args.components:
            overrides['n_components'] = args.components
        result = crosta_pca(raster, config.crosta_options(**overrides))
        stats = result.statistics
        print(f"Crosta PCA ({stats['target_mineral']}):")
        for i, ratio in enumerate(stats['explained_variance_ratio']):
            print(f"  PC{i + 1}: {ratio * 100:.1f}% of variance")
        print(f"  Mineral components: {stats['mineral_components'] or 'none'}")

    elif args.method == 'sam':
        overrides = {}
        if args.threshold is not None:
            overrides['threshold'] = args.threshold
        result = spectral_angle_mapper(raster, args.reference, config.sam_options(**overrides))
        stats = result.statistics
        print(f"Spectral Angle Mapper ({stats['reference']}):")
        print(f"  Matches: {stats['matches']} ({stats['match_percentage']:.2f}%)")
        print(f"  Angle: min={stats['min_angle']:.4f} mean={stats['mean_angle']:.4f} rad")

    else:
        result = unmix(raster, args.endmembers, config.unmixing_options())
        stats = result.statistics
        print("Linear spectral unmixing:")
        for name, value in stats['mean_abundances'].items():
            print(f"  {name}: {value:.3f}")
        print(f"  RMSE: {stats['rmse']:.5f}")

    _print_locations(result.top_locations)
    return result.to_document()


def explore_command(args, config):
    from geomin_tools.engines import exploration_workflow
    from geomin_tools.io import load_raster

    raster = load_raster(args.path, args.bands, args.n_bands)
    top_n = config.get('processing', 'top_n')
    if args.algorithm == 'rx':
        anomaly_options = config.rx_options(top_n=top_n)
    elif args.algorithm == 'lof':
        anomaly_options = config.lof_options(top_n=top_n)
    else:
        anomaly_options = config.classifier_options(top_n=top_n)

    result = exploration_workflow(
        raster,
        anomaly_algorithm=args.algorithm,
        anomaly_options=anomaly_options,
        cloud_options=config.cloud_options(),
        target_minerals=args.targets,
        n_components=config.get('mineralogy', 'crosta_pca', 'n_components'),
        exclude_clouds=args.exclude_clouds,
    )

    print(f"Priority targets ({len(result.priority_targets)}):")
    for target in result.priority_targets[:10]:
        minerals = ', '.join(f"{k}={v:.2f}" for k, v in target.minerals.items()) or '-'
        print(f"  {target.priority:<6} x={target.col:<5} y={target.row:<5} "
              f"score={target.anomaly_score:.3f}  {minerals}")
    return result.to_document()


def config_command(args, config):
    if args.show:
        print(yaml.safe_dump(config.as_dict(), default_flow_style=False))
    elif args.init:
        from geomin_tools.utils.config import CONFIG_PATHS
        config_path = Path(args.path) if args.path else CONFIG_PATHS[0]
        if config_path.exists():
            print(f"Config already exists: {config_path}")
        else:
            config.save(config_path)
            print(f"Created config: {config_path}")
    else:
        print(f"Config source: {config.source or 'defaults'}")
        print("Use --show or --init")
    return None


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='geomin',
        description='Satellite raster anomaly and alteration mineral mapping',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  geomin anomalies scene.json --algorithm rx --window 5
  geomin clouds scene.npy --algorithm landsat_qa
  geomin minerals sam scene.json --reference alunite --threshold 0.08
        """
    )
    parser.add_argument('--config', '-c', default=None, help='YAML config file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    sub = parser.add_subparsers(dest='command')

    p = sub.add_parser('anomalies', help='Detect spectral anomalies')
    _add_input_args(p)
    p.add_argument('--algorithm', '-a', choices=['rx', 'lof', 'isolation_forest'], default='rx')
    p.add_argument('--window', '-w', type=int, default=None, help='Local RX window size')
    p.add_argument('--threshold', '-t', type=float, default=None, help='RX percentile threshold')
    p.add_argument('--contamination', type=float, default=None, help='Expected anomaly proportion')
    p.add_argument('--top', type=int, default=None, help='Number of top anomalies to report')
    p.set_defaults(handler=anomalies_command)

    p = sub.add_parser('clouds', help='Detect clouds')
    _add_input_args(p)
    p.add_argument('--algorithm', '-a', choices=['threshold', 'sentinel2', 'landsat_qa'], default=None)
    p.set_defaults(handler=clouds_command)

    p = sub.add_parser('index', help='Calculate spectral indices')
    p.add_argument('path', nargs='?', default=None, help='Raster file')
    p.add_argument('indices', nargs='*', help='Index names (e.g. ndvi clay)')
    p.add_argument('--list', action='store_true', help='List available indices')
    p.add_argument('--bands', '-b', default=None)
    p.add_argument('--n-bands', type=int, default=None)
    p.add_argument('--output', '-o', default=None)
    p.set_defaults(handler=index_command)

    p = sub.add_parser('minerals', help='Alteration mineral mapping')
    methods = p.add_subparsers(dest='method', required=True)

    m = methods.add_parser('crosta', help='Directed PCA')
    _add_input_args(m)
    m.add_argument('--target', choices=['hydroxyl', 'iron', 'silica'], default=None)
    m.add_argument('--components', type=int, default=None)

    m = methods.add_parser('sam', help='Spectral Angle Mapper')
    _add_input_args(m)
    m.add_argument('--reference', '-r', required=True, help='Library mineral name')
    m.add_argument('--threshold', '-t', type=float, default=None, help='Match angle (radians)')

    m = methods.add_parser('unmix', help='Linear spectral unmixing')
    _add_input_args(m)
    m.add_argument('--endmembers', '-e', nargs='+', required=True, help='Library mineral names')
    p.set_defaults(handler=minerals_command)

    p = sub.add_parser('explore', help='Cloud mask + anomalies + Crosta priority targets')
    _add_input_args(p)
    p.add_argument('--algorithm', '-a', choices=['rx', 'lof', 'isolation_forest'], default='rx')
    p.add_argument('--targets', nargs='+', choices=['hydroxyl', 'iron', 'silica'],
                   default=['hydroxyl', 'iron', 'silica'])
    p.add_argument('--exclude-clouds', action='store_true',
                   help='Treat cloudy pixels as missing')
    p.set_defaults(handler=explore_command)

    p = sub.add_parser('config', help='Show or create configuration')
    p.add_argument('--show', action='store_true', help='Show current configuration')
    p.add_argument('--init', action='store_true', help='Create config file template')
    p.add_argument('--path', default=None, help='Config file to create with --init')
    p.set_defaults(handler=config_command)

    return parser


def main(argv=None) -> int:
    """Entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'handler', None):
        parser.print_help()
        return 0

    from geomin_tools.utils.config import Config, get_config
    config = Config(args.config) if args.config else get_config()
    _configure_logging(args.verbose, config.log_level)

    try:
        document = args.handler(args, config)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except GeoMinError as e:
        logger.error(e.full_message())
        return 1

    output = getattr(args, 'output', None)
    if output and document is not None:
        from geomin_tools.io import save_document
        save_document(document, output)
        print(f"Results saved to: {output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
