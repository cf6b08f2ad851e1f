"""
Command-line interface for planar capture and rectification.

Usage:
    orthocapture rectify IMAGE --corners X,Y X,Y X,Y X,Y --region-size W [H]
    orthocapture plan config.yaml
"""

import argparse
import logging
import sys
import time
import numpy as np
from pathlib import Path

from .camera import PinholeCamera, Size, landscape_to_portrait, look_at, portrait_to_landscape
from .capture import CapturedFrame, export_filename, rectify_frame, write_png
from .config import Config, OutputSettings
from .exceptions import CaptureError
from .quality import TransformQuality, evaluate_quality
from .region import RegionPose, compute_output_size
from .session import PlanePoseUpdate, PlaneRaycaster, TrackingSession
from .warp import PerspectiveTransform, load_image


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def parse_point(text: str):
    """Parse an 'x,y' pixel coordinate."""
    try:
        x, y = (float(v) for v in text.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected X,Y but got '{text}'")
    return x, y


def print_quality(quality: TransformQuality) -> None:
    print(f"  Camera angle:         {quality.camera_angle_deg:.1f} deg")
    print(f"  All corners visible:  {quality.all_corners_visible}")
    print(f"  Pixels per meter:     {quality.pixels_per_meter:.0f}")
    print(f"  Verdict:              {quality.description}")


def run_rectify(args, logger: logging.Logger) -> int:
    raster = load_image(args.image)
    img_h, img_w = raster.shape[:2]
    corners = np.array(args.corners, dtype=np.float64)
    if args.portrait:
        corners = portrait_to_landscape(corners, img_h)

    region_w = args.region_size[0]
    region_h = args.region_size[1] if len(args.region_size) > 1 else region_w
    # Hand-picked corners carry no pose, only the physical extent is known
    region = RegionPose(
        width=region_w, height=region_h, center=np.zeros(3), plane_transform=np.eye(4)
    )

    quality = evaluate_quality(corners, region, args.camera_angle, Size(img_w, img_h))
    if args.size:
        output_size = Size(float(args.size), args.size / region.aspect_ratio)
    else:
        output_size = compute_output_size(corners, region, max_width=args.max_width)

    transform = PerspectiveTransform(
        source_corners=corners,
        destination_size=output_size,
        timestamp=time.time(),
        quality=quality,
    )
    result = rectify_frame(CapturedFrame(raster, transform, region), order=args.order)
    image = result.image

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = Path(args.image).parent / export_filename(result)
    write_png(result.image, output_path)

    print("\n" + "=" * 60)
    print("RECTIFICATION SUMMARY")
    print("=" * 60)
    print(f"Input:                  {args.image} ({img_w} x {img_h})")
    print(f"Output:                 {output_path} ({image.shape[1]} x {image.shape[0]})")
    print_quality(quality)
    print("=" * 60)

    if not quality.is_good:
        logger.warning(f"Capture quality: {quality.description}")
    return 0


def run_plan(args, logger: logging.Logger) -> int:
    config = Config.from_yaml(args.config)
    if config.camera is None:
        raise ValueError("The plan command requires a 'camera' section")

    scene = config.scene
    camera = PinholeCamera(config.camera, look_at(scene.camera_position, scene.target))
    viewport = camera.image_size

    plane_transform = np.eye(4)
    plane_transform[1, 3] = scene.plane_height

    session = TrackingSession(solver=config.solver, quality=config.quality)
    session.channel.put(PlanePoseUpdate(plane_transform, "plane-0"))
    estimate = session.tick(camera, viewport, PlaneRaycaster(plane_transform))

    if estimate is None:
        logger.error("No capture region: the camera does not see the plane")
        return 1

    region = estimate.region
    print("\n" + "=" * 60)
    print("CAPTURE PLAN")
    print("=" * 60)
    print(f"Camera position:        {np.round(camera.position, 3).tolist()}")
    print(f"Region centre:          {np.round(region.center, 3).tolist()}")
    print(f"Region size:            {region.width:.2f}m x {region.height:.2f}m")
    corners = estimate.corners
    if args.portrait:
        corners = landscape_to_portrait(corners, viewport.height)
        print("Projected corners (portrait display px):")
    else:
        print("Projected corners (px):")
    for name, (x, y) in zip(("TL", "TR", "BR", "BL"), corners):
        print(f"  {name}:                   ({x:.1f}, {y:.1f})")
    print_quality(estimate.quality)
    print("=" * 60)

    if not estimate.quality.is_good:
        logger.warning(f"Capture from this pose is not recommended: {estimate.quality.description}")
    return 0


def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description='Rectify photographs of planar surfaces into top-down images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
    # Rectify a photo of a 0.2m x 0.2m tile
    orthocapture rectify photo.jpg --corners 100,100 500,120 480,400 90,380 --region-size 0.2

    # Force a 512 pixel wide output
    orthocapture rectify photo.jpg --corners 100,100 500,120 480,400 90,380 --region-size 0.2 --size 512

    # Corners picked on the photo shown rotated to portrait
    orthocapture rectify photo.jpg --corners 380,100 360,500 80,480 100,90 --region-size 0.2 --portrait

    # Evaluate the capture region for a synthetic camera pose
    orthocapture plan config.yaml -v
'''
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    rectify = subparsers.add_parser('rectify', help='Warp an image given four corner pixels')
    rectify.add_argument('image', type=str, help='Path to the landscape camera image')
    rectify.add_argument(
        '--corners',
        type=parse_point,
        nargs=4,
        required=True,
        metavar='X,Y',
        help='Corner pixels ordered top-left, top-right, bottom-right, bottom-left'
    )
    rectify.add_argument(
        '--region-size',
        type=float,
        nargs='+',
        required=True,
        metavar='M',
        help='Physical region width [and height] in meters'
    )
    rectify.add_argument(
        '--size',
        type=int,
        default=None,
        help='Output width in pixels (default: longer of the top and bottom edges)'
    )
    rectify.add_argument(
        '--max-width',
        type=float,
        default=OutputSettings().max_width,
        help='Upper bound on the output width when --size is not given'
    )
    rectify.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Output PNG path (default: timestamped name next to the input)'
    )
    rectify.add_argument(
        '--portrait',
        action='store_true',
        help='Corners were picked on the image shown rotated to portrait'
    )
    rectify.add_argument(
        '--camera-angle',
        type=float,
        default=90.0,
        help='Camera angle above the plane in degrees, used for the quality verdict'
    )
    rectify.add_argument(
        '--order',
        type=int,
        choices=(0, 1, 3),
        default=1,
        help='Resampling spline order (1 = bilinear, 3 = bicubic)'
    )
    rectify.add_argument('--verbose', '-v', action='store_true', dest='sub_verbose')

    plan = subparsers.add_parser('plan', help='Solve the capture region for a synthetic camera')
    plan.add_argument('config', type=str, help='Path to YAML configuration file')
    plan.add_argument(
        '--portrait',
        action='store_true',
        help='Print corners for a display rotated to portrait'
    )
    plan.add_argument('--verbose', '-v', action='store_true', dest='sub_verbose')

    args = parser.parse_args(argv)

    setup_logging(args.verbose or args.sub_verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.command == 'rectify':
            if len(args.region_size) > 2:
                parser.error("--region-size takes a width and an optional height")
            return run_rectify(args, logger)
        return run_plan(args, logger)

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except CaptureError as e:
        logger.error(f"Capture failed: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
