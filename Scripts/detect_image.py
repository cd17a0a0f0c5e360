import argparse

import cv2

from rdd_kit import (
    DEFAULT_CLASS_NAMES,
    LetterboxConfig,
    MapperConfig,
    class_label,
    draw_detections,
    load_class_names,
    load_pipeline,
    parse_rows,
    read_image,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Detect road damage on one image and print the boxes.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--model", default="models/YOLOv8_Small_RDD.onnx", help="Path to the ONNX model.")
    parser.add_argument("--metadata", default=None, help="Optional class metadata (names mapping).")
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox canvas size.")
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold (strictly greater).")
    parser.add_argument(
        "--mapping",
        choices=("letterbox", "legacy"),
        default="letterbox",
        help="Canvas -> image mapping. 'legacy' reproduces the old backend (no padding, centre as x/y).",
    )
    parser.add_argument("--clip", action="store_true", help="Clamp boxes to the image bounds.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--raw", action="store_true", help="Also print the raw model rows (canvas space).")
    parser.add_argument("--out", default=None, help="Optional output path for the annotated image.")
    parser.add_argument("--labels", action="store_true", help="Draw class labels on the annotated image.")
    args = parser.parse_args()

    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")
    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    class_names = dict(DEFAULT_CLASS_NAMES)
    if args.metadata:
        class_names = load_class_names(args.metadata, fallback=DEFAULT_CLASS_NAMES)

    pipeline = load_pipeline(
        model_path=args.model,
        letterbox_cfg=LetterboxConfig(target_size=int(args.imgsz)),
        mapper_cfg=MapperConfig(conf_threshold=args.conf, mapping=args.mapping, clip_to_image=bool(args.clip)),
        onnx_providers=onnx_providers,
    )

    print(f"providers: {','.join(pipeline.backend.providers_in_use)}")
    img = read_image(args.image)

    # One forward pass; the raw rows are printed and then mapped.
    prep = pipeline.preprocess(img)
    raw = pipeline.backend.infer(prep.tensor)
    if args.raw:
        t = prep.transform
        print(f"scale={t.scale:.6f} scaled={t.scaled_width}x{t.scaled_height} pad(l,t,r,b)="
              f"{t.pad_left:.0f},{t.pad_top:.0f},{t.pad_right:.0f},{t.pad_bottom:.0f} layout={prep.layout}")
        for row in parse_rows(raw):
            print("raw", row)

    detections = pipeline.mapper.map(raw, prep.transform, prep.dimensions)
    print(f"image={prep.dimensions.width}x{prep.dimensions.height} detections={len(detections)}")
    for det in detections:
        print(
            class_label(det.class_id, class_names),
            f"{det.confidence:.3f}",
            tuple(round(v, 1) for v in (det.x, det.y, det.width, det.height)),
        )

    if args.out:
        vis = draw_detections(img, detections, class_names=class_names, show_label=bool(args.labels))
        ok = cv2.imwrite(args.out, vis)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")
        print(f"wrote {args.out}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
