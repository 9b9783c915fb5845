import bz2
import os
import unittest
import tempfile
from unittest import mock
import shutil
import numpy as np

import pybal
from pybal import BALProblem, FileAccessError, MalformedDatasetError
from pybal.io import read_bal, read_bal_tokens, write_bal

from .mock_data import create_mock_arrays, write_bal_file, write_text_file

# Record lines: camera_index point_index x y
THREE_RECORDS = "0 0 1.5 -2.5\n0 1 3.25 4.0\n0 0 -7.0 8.125\n"
FIFTEEN_PARAMS = "\n".join(["0.1"] * 15) + "\n"


class TestBALLoading(unittest.TestCase):
    """Tests for loading BAL datasets."""

    def setUp(self):
        """Create a simple dataset for testing."""
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, "problem.txt")
        self.cameras, self.points, self.camera_indices, self.point_indices, self.observations = \
            create_mock_arrays(num_cameras=3, num_points=5)
        write_bal_file(self.path, self.cameras, self.points, self.camera_indices,
                       self.point_indices, self.observations)

    def tearDown(self):
        """Clean up temporary directory."""
        shutil.rmtree(self.temp_dir)

    def _write(self, name, text):
        path = os.path.join(self.temp_dir, name)
        write_text_file(path, text)
        return path

    def test_load_round_trip(self):
        """Every written value is reproduced bitwise by the accessors."""
        problem = pybal.load(self.path)

        self.assertEqual(problem.num_cameras(), 3)
        self.assertEqual(problem.num_points(), 5)
        self.assertEqual(problem.num_observations(), 15)

        np.testing.assert_array_equal(problem.cameras(), self.cameras)
        np.testing.assert_array_equal(problem.points(), self.points)
        np.testing.assert_array_equal(problem.observations(), self.observations)

        for i in range(problem.num_observations()):
            self.assertEqual(problem.camera_index(i), self.camera_indices[i])
            self.assertEqual(problem.point_index(i), self.point_indices[i])
            self.assertEqual(problem.observation(i), tuple(self.observations[i]))
            np.testing.assert_array_equal(problem.mutable_camera_for_observation(i),
                                          self.cameras[self.camera_indices[i]])
            np.testing.assert_array_equal(problem.mutable_point_for_observation(i),
                                          self.points[self.point_indices[i]])

    def test_load_invariants(self):
        """Buffer length and index ranges after a successful load."""
        problem = BALProblem.load(self.path)
        self.assertEqual(problem.parameters.shape, (9 * 3 + 3 * 5,))
        self.assertEqual(problem.parameters.dtype, np.float64)
        self.assertTrue(np.all((problem.camera_indices >= 0) & (problem.camera_indices < 3)))
        self.assertTrue(np.all((problem.point_indices >= 0) & (problem.point_indices < 5)))
        self.assertEqual(problem.path, self.path)

    def test_layout_is_independent_of_line_breaks(self):
        """Tokens are whitespace-delimited, line structure does not matter."""
        path = self._write("one_line.txt", "1 2 3 " + THREE_RECORDS.replace("\n", " ") +
                           " ".join(str(v) for v in range(15)))
        problem = pybal.load(path)
        self.assertEqual(problem.num_observations(), 3)
        np.testing.assert_array_equal(problem.cameras()[0], np.arange(9, dtype=np.float64))
        np.testing.assert_array_equal(problem.points(), np.arange(9, 15, dtype=np.float64).reshape(2, 3))
        self.assertEqual(problem.observation(2), (-7.0, 8.125))

    def test_load_bz2(self):
        """Compressed datasets are read transparently."""
        bz2_path = os.path.join(self.temp_dir, "problem.txt.bz2")
        with open(self.path, "rb") as src, bz2.open(bz2_path, "wb") as dst:
            dst.write(src.read())

        problem = pybal.load(bz2_path)
        np.testing.assert_array_equal(problem.cameras(), self.cameras)
        np.testing.assert_array_equal(problem.observations(), self.observations)

    def test_empty_dataset(self):
        """A dataset with zero counts is valid."""
        problem = pybal.load(self._write("empty.txt", "0 0 0\n"))
        self.assertEqual(problem.num_observations(), 0)
        self.assertEqual(problem.parameters.shape, (0,))
        self.assertEqual(problem.observations().shape, (0, 2))
        self.assertEqual(problem.cameras().shape, (0, 9))

    def test_missing_file(self):
        """A missing path fails with FileAccessError."""
        missing = os.path.join(self.temp_dir, "does_not_exist.txt")
        with self.assertRaises(FileAccessError):
            pybal.load(missing)
        # Also catchable as the built-in error
        with self.assertRaises(FileNotFoundError):
            read_bal(missing)

    def test_directory_is_not_a_dataset(self):
        with self.assertRaises(FileAccessError):
            pybal.load(self.temp_dir)

    def test_unreadable_file(self):
        """A file that exists but cannot be opened fails with FileAccessError."""
        with mock.patch("pybal.io.open", side_effect=PermissionError("Permission denied"), create=True):
            with self.assertRaises(FileAccessError) as ctx:
                pybal.load(self.path)
        self.assertIsInstance(ctx.exception.__cause__, PermissionError)

    @unittest.skipIf(not hasattr(os, "geteuid") or os.geteuid() == 0, "root can read any file")
    def test_file_without_read_permission(self):
        os.chmod(self.path, 0)
        try:
            with self.assertRaises(FileAccessError):
                pybal.load(self.path)
        finally:
            os.chmod(self.path, 0o644)

    def test_truncated_observations(self):
        """Declaring 5 observations but providing 3 is not a truncated success."""
        path = self._write("short.txt", "1 2 5\n" + THREE_RECORDS + FIFTEEN_PARAMS)
        with self.assertRaises(MalformedDatasetError):
            pybal.load(path)

    def test_truncated_parameters(self):
        path = self._write("short_params.txt", "1 2 3\n" + THREE_RECORDS + "\n".join(["0.1"] * 14))
        with self.assertRaises(MalformedDatasetError) as ctx:
            pybal.load(path)
        self.assertEqual(ctx.exception.section, "parameters")
        self.assertEqual(ctx.exception.position, 3 + 12 + 14)

    def test_malformed_header(self):
        for text in ["", "1 2", "one 2 3\n", "1.0 2 3\n", "1 -2 3\n"]:
            with self.subTest(header=text):
                with self.assertRaises(MalformedDatasetError) as ctx:
                    pybal.load(self._write("header.txt", text))
                self.assertEqual(ctx.exception.section, "header")

    def test_malformed_tokens(self):
        """A token that does not parse as its expected type aborts the load."""
        bad_index = "1 2 3\n0 0 1.5 -2.5\n0 x 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
        with self.assertRaises(MalformedDatasetError) as ctx:
            pybal.load(self._write("bad_index.txt", bad_index))
        self.assertEqual(ctx.exception.section, "observations")
        self.assertEqual(ctx.exception.position, 3 + 4 + 1)

        float_index = "1 2 3\n0.5 0 1.5 -2.5\n0 1 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
        with self.assertRaises(MalformedDatasetError):
            pybal.load(self._write("float_index.txt", float_index))

        bad_param = "1 2 3\n" + THREE_RECORDS + FIFTEEN_PARAMS.replace("0.1", "abc", 1)
        with self.assertRaises(MalformedDatasetError) as ctx:
            pybal.load(self._write("bad_param.txt", bad_param))
        self.assertEqual(ctx.exception.section, "parameters")
        self.assertEqual(ctx.exception.position, 3 + 12)

    def test_integer_tokens_are_plain_ascii_digits(self):
        """Digit separators and hex literals are not valid integers."""
        for token in ["0_0", "+0_1", "0x0"]:
            with self.subTest(token=token):
                text = f"1 2 3\n0 0 1.5 -2.5\n0 {token} 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
                with self.assertRaises(MalformedDatasetError) as ctx:
                    pybal.load(self._write("int_token.txt", text))
                self.assertEqual(ctx.exception.section, "observations")
                self.assertEqual(ctx.exception.position, 3 + 4 + 1)

        with self.assertRaises(MalformedDatasetError) as ctx:
            pybal.load(self._write("header_token.txt", "1 2 0_3\n" + THREE_RECORDS + FIFTEEN_PARAMS))
        self.assertEqual(ctx.exception.section, "header")
        self.assertEqual(ctx.exception.position, 2)

    def test_float_tokens_are_plain_ascii_numbers(self):
        for token in ["1_000.5", "1.5_0", "1e1_0", "0x1p3"]:
            with self.subTest(token=token):
                text = "1 2 3\n" + THREE_RECORDS + FIFTEEN_PARAMS.replace("0.1", token, 1)
                with self.assertRaises(MalformedDatasetError) as ctx:
                    pybal.load(self._write("float_token.txt", text))
                self.assertEqual(ctx.exception.section, "parameters")
                self.assertEqual(ctx.exception.position, 3 + 12)

        bad_pixel = "1 2 3\n0 0 1_5 -2.5\n0 1 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
        with self.assertRaises(MalformedDatasetError) as ctx:
            pybal.load(self._write("bad_pixel.txt", bad_pixel))
        self.assertEqual(ctx.exception.section, "observations")
        self.assertEqual(ctx.exception.position, 3 + 2)

    def test_non_ascii_digits(self):
        """Unicode digits that int() and float() would accept are rejected."""
        records = "0 0 1.5 -2.5 0 1 3.25 4.0 0 0 -7.0 8.125".split()
        params = ["0.1"] * 15
        cases = [
            (3 + 1, "٠", "observations"),   # Arabic-Indic zero as a point index
            (3 + 4, "０", "observations"),   # fullwidth zero as a camera index
            (3 + 12, "١.5", "parameters"),
        ]
        for position, token, section in cases:
            with self.subTest(token=token):
                tokens = ["1", "2", "3"] + records + params
                tokens[position] = token
                with self.assertRaises(MalformedDatasetError) as ctx:
                    read_bal_tokens(tokens)
                self.assertEqual(ctx.exception.section, section)
                self.assertEqual(ctx.exception.position, position)

    def test_float_token_forms(self):
        """Signs, exponents and bare decimal points are valid real numbers."""
        values = ["+1", "-2.", ".5", "1e3", "-2.5E-2", "+3e+1", "7", "0.0", "-0"]
        params = "\n".join(values + ["0.1"] * 6)
        problem = pybal.load(self._write("forms.txt", "1 2 3\n" + THREE_RECORDS + params))
        np.testing.assert_array_equal(problem.camera_block(0),
                                      [1.0, -2.0, 0.5, 1000.0, -0.025, 30.0, 7.0, 0.0, -0.0])

    def test_out_of_range_index(self):
        """Indices referencing missing cameras or points are rejected."""
        bad_camera = "1 2 3\n0 0 1.5 -2.5\n1 1 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
        with self.assertRaises(MalformedDatasetError):
            pybal.load(self._write("bad_camera.txt", bad_camera))

        bad_point = "1 2 3\n0 0 1.5 -2.5\n0 -1 3.25 4.0\n0 0 -7.0 8.125\n" + FIFTEEN_PARAMS
        with self.assertRaises(MalformedDatasetError):
            pybal.load(self._write("bad_point.txt", bad_point))

    def test_trailing_tokens_are_ignored(self):
        path = self._write("trailing.txt", "1 2 3\n" + THREE_RECORDS + FIFTEEN_PARAMS + "42 43\n")
        with self.assertLogs("pybal.io.text", level="WARNING"):
            problem = pybal.load(path)
        self.assertEqual(problem.num_parameters(), 15)

    def test_corrupt_bz2(self):
        path = self._write("corrupt.txt.bz2", "this is not bzip2 data")
        with self.assertRaises(MalformedDatasetError):
            pybal.load(path)


class TestBALWriting(unittest.TestCase):
    """Tests for writing BAL datasets."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.arrays = create_mock_arrays(num_cameras=2, num_points=4, seed=3)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_write_read(self):
        problem = BALProblem.from_arrays(*self.arrays)
        for name in ["out.txt", "out.txt.bz2"]:
            with self.subTest(name=name):
                path = os.path.join(self.temp_dir, name)
                write_bal(problem, path)
                data = read_bal(path)
                self.assertEqual(data.num_cameras, 2)
                self.assertEqual(data.num_points, 4)
                self.assertEqual(data.num_observations, 8)
                np.testing.assert_array_equal(data.parameters, problem.parameters)
                np.testing.assert_array_equal(data.observations, problem.observations())
                np.testing.assert_array_equal(data.camera_indices, problem.camera_indices)
                np.testing.assert_array_equal(data.point_indices, problem.point_indices)

    def test_save_updated_parameters(self):
        """Saving writes the current, in-place modified values."""
        path = os.path.join(self.temp_dir, "nested", "problem.txt")
        problem = BALProblem.from_arrays(*self.arrays)
        problem.mutable_point_for_observation(0)[:] = (0.1, 0.2, 0.3)
        problem.save(path)
        self.assertEqual(problem.path, path)

        reloaded = pybal.load(path)
        np.testing.assert_array_equal(reloaded.point_block(problem.point_index(0)), [0.1, 0.2, 0.3])
        np.testing.assert_array_equal(reloaded.parameters, problem.parameters)

    def test_save_without_path(self):
        problem = BALProblem.from_arrays(*self.arrays)
        with self.assertRaises(ValueError):
            problem.save()

    def test_write_invalid_input(self):
        with self.assertRaises(TypeError):
            write_bal({"cameras": []}, os.path.join(self.temp_dir, "x.txt"))


if __name__ == "__main__":
    unittest.main()
