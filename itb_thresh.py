#! /usr/bin/python3
# -*- coding: utf-8 -*-
##################################################################################################
# Copyright (c) 2025 Mikio Hirabayashi
#
# Permission is hereby granted, free of charge, to any person obtaining a copy of this software
# and associated documentation files (the "Software"), to deal in the Software without
# restriction, including without limitation the rights to use, copy, modify, merge, publish,
# distribute, sublicense, and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all copies or
# substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING
# BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM,
# DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.
##################################################################################################


import argparse
import collections
import logging
import io
import math
import os
import re
import shutil
import subprocess
import sys
import tempfile
import time

import cv2
import exifread
import numpy as np
from PIL import Image, ImageCms


PROG_NAME = "itb_thresh.py"
PROG_VERSION = "0.0.1"
CMD_EXIFTOOL = "exiftool"
EXTS_IMAGE = [".png", ".jpg", ".jpeg", ".tiff", ".tif", ".webp", ".bmp"]
EXTS_EXIFTOOL = [".jpg", ".jpeg", ".png", ".tiff", ".tif", ".webp"]
EXTS_EXIFREAD = [".jpg", ".jpeg", ".tiff", ".tif"]
EXTS_PILLOW_ICC_READ = [".jpg", ".jpeg", ".png", ".tiff", ".tif", ".webp"]
EXTS_PILLOW_ICC_WRITE = [".jpg", ".jpeg", ".png", ".tiff", ".tif", ".webp"]
NUM_LEVELS = 256
DEFAULT_SAHOO_POWER = 2.0
SAHOO_UNIT_POWER_SUBSTITUTE = 0.999999
CHART_SUFFIX = "_histog.png"
METHOD_NAMES = {
  "otsu": ("otsu", "o"),
  "sahoo": ("sahoo", "s", "entropy"),
}
METHOD_LABELS = {
  "otsu": "Otsu's between-class variance",
  "sahoo": "Sahoo's generalized entropy",
}
GRAPH_NAMES = {
  "none": ("none", "n", ""),
  "save": ("save", "s"),
  "view": ("view", "v"),
}
GRAY_WEIGHTS = [
  (("bt601", "601", "gray"), (0.299, 0.587, 0.114)),
  (("bt709", "709"), (0.2126, 0.7152, 0.0722)),
  (("bt2020", "2020"), (0.2627, 0.6780, 0.0593)),
  (("red", "r"), (1.0, 0.41, 0.08)),
  (("orange", "o"), (1.0, 0.83, 0.166)),
  (("yellow", "y"), (0.6, 1.0, 0.2)),
  (("green", "g"), (0.3, 1.0, 0.2)),
  (("blue", "b"), (0.2, 0.5, 1.0)),
  (("mean", "m"), (1.0, 1.0, 1.0)),
]
GRAY_SPACES = ["lab", "luminance", "hsv", "value", "hsl", "lightness"]
ICC_SPACES_BY_MODE = {
  "1": "GRAY", "L": "GRAY", "LA": "GRAY", "I;16": "GRAY",
  "RGB": "RGB", "RGBA": "RGB", "CMYK": "CMYK",
}


logging.basicConfig(format="%(message)s", stream=sys.stderr)
logger = logging.getLogger(PROG_NAME)
logger.setLevel(logging.INFO)
cmd_env = os.environ
cmd_env["PATH"] = cmd_env["PATH"] + ":/opt/homebrew/bin"
cmd_env["PATH"] = cmd_env["PATH"] + ":/usr/local/bin"
cv2.setLogLevel(0)


ThresholdConfig = collections.namedtuple(
  "ThresholdConfig", ["method", "power", "graph", "gray"])


def has_command(name):
  """Checks existence of a command."""
  return bool(shutil.which(name))


def generate_blank(width=640, height=480, color=(0.5, 0.5, 0.5)):
  """Generates a blank image."""
  color = color[2], color[1], color[0]
  image = np.full((height, width, 3), color, dtype=np.float32)
  return image


def generate_gradient(width=640, height=480):
  """Generates a horizontal ramp from black to white."""
  ramp = np.arange(width, dtype=np.float32) / max(width - 1, 1)
  gray = np.tile(ramp, (height, 1))
  return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def show_image(image, title="show_image"):
  """Shows an image in the window."""
  cv2.imshow(title, image)
  cv2.waitKey(0)
  cv2.destroyAllWindows()


def normalize_input_image(image):
  """Scales decoded pixels into BGR data in [0, 1] without changing the gamma."""
  if np.issubdtype(image.dtype, np.integer):
    image = image.astype(np.float32) / float(np.iinfo(image.dtype).max)
  else:
    image = image.astype(np.float32)
  if image.ndim == 2:
    image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
  elif image.shape[2] == 4:
    image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
  return np.clip(image, 0, 1)


def read_icc_profile(file_path):
  """Reads the embedded ICC profile of an image file as bytes."""
  ext = os.path.splitext(file_path)[1].lower()
  if ext not in EXTS_PILLOW_ICC_READ:
    return None
  try:
    with Image.open(file_path) as img:
      return img.info.get("icc_profile") or None
  except OSError as e:
    logger.debug(f"cannot read ICC profile: {e}")
  return None


def get_icc_color_space(icc_bytes):
  """Gets the color space signature of an ICC profile, like RGB or GRAY."""
  profile = ImageCms.ImageCmsProfile(io.BytesIO(icc_bytes))
  return profile.profile.xcolor_space.strip()


def copy_icc_profile(source_path, target_path):
  """Copies ICC profile from source image to target image.

  The profile is copied only when its color space is that of the target
  image, so an RGB profile never lands on the binary grayscale output.
  """
  target_ext = os.path.splitext(target_path)[1].lower()
  if target_ext not in EXTS_PILLOW_ICC_WRITE:
    logger.warning(f"ICC profile is not supported: {target_ext}")
    return False
  profile = read_icc_profile(source_path)
  if not profile:
    logger.debug(f"no ICC profile in {source_path}")
    return False
  try:
    color_space = get_icc_color_space(profile)
  except (OSError, ImageCms.PyCMSError) as e:
    logger.warning(f"broken ICC profile: {e}")
    return False
  with Image.open(target_path) as img:
    img.load()
    image = img.copy()
  if ICC_SPACES_BY_MODE.get(image.mode) != color_space:
    logger.warning(f"ICC profile is not copied:"
                   f" profile={color_space}, image mode={image.mode}")
    return False
  logger.info(f"Copying ICC profile")
  image.save(target_path, icc_profile=profile)
  return True


def apply_orientation_image(image, orientation):
  """Rotates and flips the image by an EXIF orientation value."""
  if orientation == 2:
    return cv2.flip(image, 1)
  if orientation == 3:
    return cv2.rotate(image, cv2.ROTATE_180)
  if orientation == 4:
    return cv2.flip(image, 0)
  if orientation == 5:
    return cv2.transpose(image)
  if orientation == 6:
    return cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
  if orientation == 7:
    return cv2.rotate(cv2.transpose(image), cv2.ROTATE_180)
  if orientation == 8:
    return cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE)
  return image


def load_image(file_path, meta=None):
  """Loads an image and returns its BGR data in [0, 1] as a NumPy array."""
  logger.debug(f"loading image: {file_path}")
  image = cv2.imread(file_path, cv2.IMREAD_UNCHANGED)
  if image is None:
    raise ValueError(f"Failed to load image: {file_path}")
  dtype = image.dtype
  image = normalize_input_image(image)
  orientation = (meta or {}).get("_orientation_", 1)
  if orientation != 1:
    logger.debug(f"applying orientation: {orientation}")
    image = apply_orientation_image(image, orientation)
  h, w = image.shape[:2]
  logger.debug(f"input image: h={h}, w={w}, area={h*w}, dtype={dtype}")
  return image


def save_image(file_path, image):
  """Saves an 8-bit image through a temporary file in the same directory."""
  assert image.dtype == np.uint8
  logger.debug(f"saving image: {file_path}")
  ext = os.path.splitext(file_path)[1].lower()
  if ext not in EXTS_IMAGE:
    raise ValueError(f"Unsupported file format: {ext}")
  out_dir = os.path.dirname(os.path.abspath(file_path))
  with tempfile.NamedTemporaryFile(
      dir=out_dir, prefix=".itb-", suffix=ext, delete=False) as tmp_file:
    tmp_path = tmp_file.name
  try:
    success = cv2.imwrite(tmp_path, image)
    if not success:
      raise ValueError(f"Failed to save image: {file_path}")
    os.replace(tmp_path, file_path)
  finally:
    if os.path.exists(tmp_path):
      os.remove(tmp_path)


def get_metadata(path):
  """Gets the Exif orientation of an image file."""
  meta = {}
  ext = os.path.splitext(path)[1].lower()
  if has_command(CMD_EXIFTOOL) and ext in EXTS_EXIFTOOL:
    cmd = [CMD_EXIFTOOL, "-s", "-t", "-n", "-Orientation", path]
    logger.debug(f"running: {' '.join(cmd)}")
    try:
      content = subprocess.check_output(
        cmd, env=cmd_env, stdin=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except subprocess.CalledProcessError as e:
      logger.debug(f"exiftool failed: {e}")
      content = b""
    for line in content.decode("utf-8", "ignore").split("\n"):
      fields = line.strip().split("\t", 1)
      if len(fields) < 2: continue
      match = re.fullmatch(r"([1-8])", fields[1].strip())
      if fields[0] == "Orientation" and match:
        meta["_orientation_"] = int(match.group(1))
  if not meta and ext in EXTS_EXIFREAD:
    try:
      with open(path, "rb") as f:
        tags = exifread.process_file(f, details=False)
    except Exception as e:
      logger.debug(f"cannot read Exif: {e}")
      tags = {}
    tag = tags.get("Image Orientation")
    values = getattr(tag, "values", None) or [1]
    if values[0] in range(1, 9):
      meta["_orientation_"] = int(values[0])
  return meta


def parse_color_expr(expr):
  """Parses a gray name or a hex color and returns a R, G, B tuple."""
  expr = expr.strip().lower()
  named_colors = {"black": "000000", "gray": "808080", "white": "ffffff"}
  expr = named_colors.get(expr, expr).lstrip("#")
  if re.fullmatch(r"[0-9a-f]{6}", expr):
    return tuple(int(expr[i:i+2], 16) / 255 for i in (0, 2, 4))
  if re.fullmatch(r"[0-9a-f]{3}", expr):
    return tuple(int(c * 2, 16) / 255 for c in expr)
  raise ValueError(f"invalid color expression '{expr}'")


def parse_generator_expression(expr):
  """Parses a generator expression like gradient:width=256:height=4.

  Returns the generator name and its keyword arguments.
  """
  fields = [field.strip() for field in expr.split(":")]
  name = fields[0].lower()
  kwargs = {}
  for field in fields[1:]:
    if not field: continue
    key, sep, value = field.partition("=")
    key = key.strip().lower()
    if not sep:
      raise ValueError(f"missing value of '{key}' in '{expr}'")
    if key in ["width", "height"]:
      kwargs[key] = int(value)
      if kwargs[key] <= 0:
        raise ValueError(f"{key} must be positive: {value}")
    elif key == "color" and name == "blank":
      kwargs[key] = parse_color_expr(value)
    else:
      raise ValueError(f"Unknown parameter of {name}: {key}")
  return name, kwargs


def find_gray_weights(name):
  """Finds RGB weights of a grayscale conversion by name."""
  for names, weights in GRAY_WEIGHTS:
    if name in names:
      return weights
  return None


def convert_grayscale_image(image, name="bt601"):
  """Converts the BGR image into a single channel grayscale image."""
  assert image.dtype == np.float32
  name = name.strip().lower()
  color_map = find_gray_weights(name)
  if color_map:
    sum_ratio = sum(color_map)
    weights = np.array([x / sum_ratio for x in reversed(color_map)], dtype=np.float32)
    gray_image = np.dot(image[..., :3], weights).astype(np.float32)
  elif name in ["lab", "luminance"]:
    lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
    l, _, _ = cv2.split(lab)
    gray_image = np.clip(l, 0, 100) / 100
  elif name in ["hsv", "value"]:
    hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
    _, _, v = cv2.split(hsv)
    gray_image = v
  elif name in ["hsl", "lightness"]:
    hls = cv2.cvtColor(image, cv2.COLOR_BGR2HLS)
    _, l, _ = cv2.split(hls)
    gray_image = l
  else:
    raise ValueError(f"Unknown grayscale method: {name}")
  return np.clip(gray_image, 0, 1).astype(np.float32)


def quantize_levels(gray_image):
  """Maps grayscale values in [0, 1] to integer levels."""
  levels = np.round(np.clip(gray_image, 0, 1) * (NUM_LEVELS - 1))
  return levels.astype(np.uint8)


def compute_histogram(levels):
  """Counts pixels of each intensity level."""
  assert levels.dtype == np.uint8
  return np.bincount(levels.ravel(), minlength=NUM_LEVELS).astype(np.int64)


def as_histogram_array(hist):
  """Converts a level-to-count mapping or a sequence into a histogram array."""
  if isinstance(hist, dict):
    array = np.zeros(NUM_LEVELS, dtype=np.float64)
    for level, count in hist.items():
      level = int(level)
      if level < 0 or level >= NUM_LEVELS:
        raise ValueError(f"histogram level out of range: {level}")
      array[level] = count
    return array
  array = np.asarray(hist, dtype=np.float64)
  if array.shape != (NUM_LEVELS,):
    raise ValueError(f"histogram must have {NUM_LEVELS} bins: shape={array.shape}")
  return array


def normalize_histogram(hist):
  """Converts pixel counts into probabilities which sum to 1."""
  hist = as_histogram_array(hist)
  if np.any(hist < 0):
    raise ValueError("histogram has negative counts")
  total = hist.sum()
  if total <= 0:
    raise ValueError("histogram has no pixels")
  return hist / total


def sum_above(values):
  """Returns sums of the values strictly above each level."""
  return np.append(np.cumsum(values[::-1])[::-1][1:], 0.0)


def compute_otsu_statistics(prob):
  """Computes the cumulative moments used by Otsu's method.

  Returns a tuple of the zeroth moment of the low class, the first moment of
  the low class, the zeroth moment of the high class, and the global mean.
  The low class of the level t contains t itself.  The high class mass is
  summed from the top so that it is exactly zero once no mass is left.
  """
  levels = np.arange(NUM_LEVELS, dtype=np.float64)
  n_low = np.cumsum(prob)
  g_low = np.cumsum(levels * prob)
  n_high = sum_above(prob)
  mean = g_low[-1]
  return n_low, g_low, n_high, mean


def compute_otsu_scores(prob):
  """Computes the between-class variance of each candidate threshold.

  Candidates are the levels 0 to 254.  The score of a candidate whose low or
  high class is empty is -inf.
  """
  n_low, g_low, n_high, mean = compute_otsu_statistics(prob)
  n_low, g_low, n_high = n_low[:-1], g_low[:-1], n_high[:-1]
  valid = (n_low > 0) & (n_high > 0)
  scores = np.full(NUM_LEVELS - 1, -np.inf)
  scores[valid] = ((mean * n_low[valid] - g_low[valid]) ** 2 /
                   (n_low[valid] * n_high[valid]))
  return scores


def adjust_sahoo_power(power):
  """Validates the entropy order and moves it off the singular point 1."""
  power = float(power)
  if not math.isfinite(power) or power <= 0:
    raise ValueError(f"power must be a positive number: {power}")
  if power == 1:
    logger.debug(f"power=1 is replaced with {SAHOO_UNIT_POWER_SUBSTITUTE}")
    power = SAHOO_UNIT_POWER_SUBSTITUTE
  return power


def compute_sahoo_statistics(prob, power):
  """Computes the cumulative sums used by Sahoo's method.

  Returns a tuple of the power sum and the mass of the low class, and those
  of the high class.
  """
  powered = prob ** power
  r_low = np.cumsum(powered)
  n_low = np.cumsum(prob)
  r_high = sum_above(powered)
  n_high = sum_above(prob)
  return r_low, n_low, r_high, n_high


def compute_sahoo_scores(prob, power=DEFAULT_SAHOO_POWER):
  """Computes the total generalized entropy of each candidate threshold."""
  power = adjust_sahoo_power(power)
  r_low, n_low, r_high, n_high = compute_sahoo_statistics(prob, power)
  r_low, n_low, r_high, n_high = r_low[:-1], n_low[:-1], r_high[:-1], n_high[:-1]
  valid = (n_low > 0) & (n_high > 0)
  scale = 1 / (1 - power)
  scores = np.full(NUM_LEVELS - 1, -np.inf)
  with np.errstate(divide="ignore", invalid="ignore"):
    e_low = scale * (np.log(r_low[valid]) - power * np.log(n_low[valid]))
    e_high = scale * (np.log(r_high[valid]) - power * np.log(n_high[valid]))
  total = e_low + e_high
  # underflown power sums make the entropy meaningless
  total[~np.isfinite(total)] = -np.inf
  scores[valid] = total
  return scores


def select_threshold(scores, prob):
  """Selects the lowest level with the highest score.

  When no candidate splits the histogram into two non-empty classes, the
  lowest populated level is returned, capped at the last candidate.
  """
  if not np.any(np.isfinite(scores)):
    level = int(np.flatnonzero(prob)[0])
    threshold = min(level, NUM_LEVELS - 2)
    logger.debug(f"degenerate histogram: level={level}, threshold={threshold}")
    return threshold
  # argmax takes the first maximum, so a plateau of equal scores, as between
  # two equal spikes, yields its lowest level
  threshold = int(np.argmax(scores))
  logger.debug(f"best score: threshold={threshold}, score={scores[threshold]:.6g}")
  return threshold


def find_otsu_threshold(hist):
  """Finds the threshold which maximizes the between-class variance."""
  prob = normalize_histogram(hist)
  return select_threshold(compute_otsu_scores(prob), prob)


def find_sahoo_threshold(hist, power=DEFAULT_SAHOO_POWER):
  """Finds the threshold which maximizes the sum of generalized entropies."""
  prob = normalize_histogram(hist)
  return select_threshold(compute_sahoo_scores(prob, power), prob)


def find_threshold(hist, config):
  """Finds the threshold by the method of the config."""
  if config.method == "otsu":
    return find_otsu_threshold(hist)
  if config.method == "sahoo":
    return find_sahoo_threshold(hist, config.power)
  raise ValueError(f"Unknown threshold method: {config.method}")


def threshold_to_percent(threshold):
  """Converts a threshold level into the percentage of the full scale."""
  return 100 * threshold / (NUM_LEVELS - 1)


def apply_threshold_image(levels, threshold):
  """Makes a binary image where levels above the threshold are white."""
  assert levels.dtype == np.uint8
  return np.where(levels > threshold, 255, 0).astype(np.uint8)


def resolve_name(name, table, kind):
  """Resolves an alias into the canonical name of the table."""
  name = (name or "").strip().lower()
  for canonical, aliases in table.items():
    if name in aliases:
      return canonical
  raise ValueError(f"Unknown {kind}: {name}")


def make_threshold_config(method="otsu", power=None, graph="none", gray="bt601"):
  """Validates parameters and makes an immutable config."""
  method = resolve_name(method, METHOD_NAMES, "threshold method")
  graph = resolve_name(graph, GRAPH_NAMES, "graph mode")
  gray = (gray or "bt601").strip().lower()
  if not find_gray_weights(gray) and gray not in GRAY_SPACES:
    raise ValueError(f"Unknown grayscale method: {gray}")
  if power is None:
    power = DEFAULT_SAHOO_POWER
  elif method != "sahoo":
    logger.warning(f"power is ignored by the {method} method")
  power = float(power)
  if not math.isfinite(power) or power <= 0:
    raise ValueError(f"power must be a positive number: {power}")
  return ThresholdConfig(method=method, power=power, graph=graph, gray=gray)


def put_label(image, text, position="tr", color=(0, 0, 255), font_ratio=1.0):
  """Puts a text at a corner of an 8-bit BGR image."""
  h, w = image.shape[:2]
  font = cv2.FONT_HERSHEY_SIMPLEX
  font_scale = 0.002 * math.sqrt(h * w) * font_ratio
  thickness = max(1, int(font_scale * 1.5))
  (tw, th), _ = cv2.getTextSize(text, font, font_scale, thickness)
  tx = w - tw - w // 40 if "r" in position else w // 50
  ty = h - h // 40 if "b" in position else th + h // 40
  logger.debug(f"label={text}, scale={font_scale:.2f}, x={tx}, y={ty}, w={tw}, h={th}")
  cv2.putText(image, text, (tx, ty), font, font_scale, color, thickness, cv2.LINE_AA)
  return image


def render_histogram_chart(hist, threshold, width=256, height=200):
  """Renders a bar chart of the histogram with a marker at the threshold."""
  hist = as_histogram_array(hist)
  chart = np.full((height, width, 3), 255, dtype=np.uint8)
  peak = max(float(hist.max()), 1.0)
  bar_heights = np.round(hist / peak * (height - 1)).astype(np.int64)
  for level, bar_height in enumerate(bar_heights.tolist()):
    if bar_height <= 0: continue
    x1 = level * width // NUM_LEVELS
    x2 = max(x1, (level + 1) * width // NUM_LEVELS - 1)
    cv2.rectangle(chart, (x1, height - bar_height), (x2, height - 1), (0, 0, 0), -1)
  marker_x = min(int((threshold + 0.5) * width / NUM_LEVELS), width - 1)
  cv2.line(chart, (marker_x, 0), (marker_x, height - 1), (0, 0, 255), 1)
  label = f"{threshold_to_percent(threshold):.1f}%"
  position = "tr" if threshold < NUM_LEVELS // 2 else "tl"
  return put_label(chart, label, position)


def make_chart_path(output_path):
  """Makes the path of the histogram chart next to the output image."""
  stem = os.path.splitext(output_path)[0]
  return stem + CHART_SUFFIX


def log_image_stats(image, prefix):
  """prints logs of an image."""
  minv = np.min(image)
  maxv = np.max(image)
  mean = np.mean(image)
  stddev = np.std(image)
  logger.debug(f"{prefix} stats: min={minv:.3f}, max={maxv:.3f}, mean={mean:.3f},"
               f" stddev={stddev:.3f}")


def log_histogram_stats(hist):
  """prints logs of a histogram."""
  levels = np.arange(NUM_LEVELS)
  total = int(hist.sum())
  populated = np.flatnonzero(hist)
  mean = float(np.dot(levels, hist)) / max(total, 1)
  stddev = math.sqrt(float(np.dot((levels - mean) ** 2, hist)) / max(total, 1))
  logger.debug(f"histogram: total={total}, populated={len(populated)},"
               f" min={populated.min() if total else 0}, max={populated.max() if total else 0},"
               f" mean={mean:.2f}, stddev={stddev:.2f}")


def load_input_image(input_path):
  """Loads the input image or generates one from a bracketed expression."""
  match = re.fullmatch(r"\[([a-z].*)\]", input_path)
  if match:
    name, kwargs = parse_generator_expression(match.group(1))
    if name == "blank":
      return generate_blank(**kwargs)
    if name == "gradient":
      return generate_gradient(**kwargs)
    raise ValueError(f"Unsupported image generation: {name}")
  if not os.path.exists(input_path):
    raise ValueError(f"{input_path} doesn't exist")
  meta = get_metadata(input_path)
  if meta:
    logger.debug(f"metadata: {meta}")
  return load_image(input_path, meta)


def process_image(input_path, output_path, config, keep_icc=False):
  """Thresholds the input image and writes the binary image.

  Returns the selected threshold level.
  """
  ext = os.path.splitext(output_path)[1].lower()
  if ext not in EXTS_IMAGE:
    raise ValueError(f"Unsupported file format: {ext}")
  logger.info(f"Loading the input file")
  image = load_input_image(input_path)
  if logger.isEnabledFor(logging.DEBUG):
    log_image_stats(image, "input")
  logger.info(f"Converting the image to grayscale by {config.gray}")
  gray_image = convert_grayscale_image(image, config.gray)
  levels = quantize_levels(gray_image)
  hist = compute_histogram(levels)
  if logger.isEnabledFor(logging.DEBUG):
    log_histogram_stats(hist)
  logger.info(f"Computing the threshold by {METHOD_LABELS[config.method]}")
  threshold = find_threshold(hist, config)
  percent = threshold_to_percent(threshold)
  logger.info(f"Thresholding image at {percent:.4f}%: level={threshold}")
  binary_image = apply_threshold_image(levels, threshold)
  logger.info(f"Saving the output file")
  save_image(output_path, binary_image)
  if keep_icc and not re.fullmatch(r"\[.*\]", input_path):
    copy_icc_profile(input_path, output_path)
  if config.graph != "none":
    chart = render_histogram_chart(hist, threshold)
    if config.graph == "save":
      chart_path = make_chart_path(output_path)
      logger.info(f"Saving the histogram chart: {chart_path}")
      save_image(chart_path, chart)
    elif config.graph == "view":
      show_image(chart, title=f"histogram: {percent:.1f}%")
  return threshold


def set_logging_level(level):
  """Sets the logging level."""
  logger.setLevel(level)


def make_ap_args():
  """Makes arguments of the argument parser."""
  description = "Threshold an image at the level chosen from its histogram."
  version_msg = (f"{PROG_NAME} version {PROG_VERSION}."
            f" Powered by OpenCV2 {cv2.__version__} and NumPy {np.__version__}.")
  ap = argparse.ArgumentParser(
    prog=PROG_NAME, description=description, epilog=version_msg,
    formatter_class=argparse.RawDescriptionHelpFormatter, allow_abbrev=False)
  ap.add_argument("--version", action='version', version=version_msg)
  ap.add_argument("input", help="input image path, or [blank], [gradient]")
  ap.add_argument("output", help="output image path")
  ap.add_argument("--method", "-m", default="otsu", metavar="name",
                  help="choose a threshold method: otsu (default), sahoo")
  ap.add_argument("--power", "-p", type=float, default=None, metavar="num",
                  help="entropy order of the sahoo method. positive (default=2)")
  ap.add_argument("--graph", "-g", default="none", metavar="name",
                  help="show the histogram chart: none (default), save, view")
  ap.add_argument("--gray", default="bt601", metavar="name",
                  help="convert to grayscale: bt601 (default), bt709, bt2020,"
                  " red, orange, yellow, green, blue, mean, lab, hsv, hsl")
  ap.add_argument("--keep-icc", action='store_true',
                  help="attach the ICC profile of the input if it fits the output")
  ap.add_argument("--debug", action='store_true', help="print debug messages")
  args = ap.parse_args()
  try:
    args.config = make_threshold_config(args.method, args.power, args.graph, args.gray)
  except ValueError as e:
    ap.error(str(e))
  return args


def main():
  """Executes all operations."""
  args = make_ap_args()
  start_time = time.time()
  if args.debug:
    set_logging_level(logging.DEBUG)
  logger.debug(f"{PROG_NAME}={PROG_VERSION},"
               f" OpenCV={cv2.__version__}, NumPy={np.__version__}")
  logger.info(f"Process started: input={args.input}, output={args.output}")
  logger.debug(f"config: {args.config}")
  try:
    process_image(args.input, args.output, args.config, keep_icc=args.keep_icc)
  except (ValueError, OSError, cv2.error) as e:
    logger.error(f"Error: {e}")
    return 1
  elapsed_time = time.time() - start_time
  logger.info(f"Process done: time={elapsed_time:.2f}s")
  return 0


if __name__ == "__main__":
  sys.exit(main())


# END OF FILE
