#!/usr/bin/env python

# Copyright (C) 2009 pdfcrowd.com
# 
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation
# files (the "Software"), to deal in the Software without
# restriction, including without limitation the rights to use,
# copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following
# conditions:
# 
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
# 
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES
# OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT
# HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY,
# WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR
# OTHER DEALINGS IN THE SOFTWARE.

from setuptools import setup

py_modules=['pdfcrowd_relay']

setup(name='pdfcrowd-relay',
      version='1.0.0',
      description="An asyncio client streaming HTML to PDF conversions from the Pdfcrowd API.",
      url='https://pdfcrowd.com/doc/api/',
      license="MIT",
      author='Pdfcrowd Team',
      author_email='support@pdfcrowd.com',
      long_description="""
Converts HTML documents, web pages and local files to PDF with the Pdfcrowd API
and streams the result to a file, a stream or an HTTP response.
""",
      py_modules=py_modules,
      python_requires='>=3.8',
      install_requires=['httpx>=0.26'],
      extras_require={'test': ['pytest', 'pytest-asyncio']},
      scripts=['./html2pdf'],
      classifiers=["License :: OSI Approved :: MIT License",
                   "Operating System :: MacOS",
                   "Operating System :: Microsoft",
                   "Operating System :: POSIX",
                   "Operating System :: Unix",
                   "Intended Audience :: Developers",
                   "Programming Language :: Python :: 3",
                   "Framework :: AsyncIO",
                   "Topic :: Software Development :: Libraries"])
